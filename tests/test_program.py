"""Tests for the line-numbered program store."""

import os
import sys
import unittest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import nodes
from errors import BasicSyntaxError, DirectStatementInFileError, IllegalQuantityError
from parser import Parser
from program import Program, compile_statements


class TestProgram(unittest.TestCase):

    def setUp(self):
        self.parser = Parser()
        self.program = Program()

    def add(self, text):
        number, statements, source = self.parser.parse_source(text)
        return self.program.insert_or_replace(number, source, statements)

    def test_lines_sorted_whatever_the_entry_order(self):
        for text in ('30 END', '10 PRINT 1', '20 GOTO 10'):
            self.add(text)
        self.assertEqual(self.program.numbers, [10, 20, 30])
        self.assertEqual(self.program.lowest_line(), 10)
        self.assertEqual(self.program.next_line(10), 20)
        self.assertIsNone(self.program.next_line(30))

    def test_replace_keeps_one_entry(self):
        self.add('10 PRINT 1')
        self.add('10 PRINT 2')
        self.assertEqual(self.program.listing(), ['10 PRINT 2'])

    def test_empty_line_deletes(self):
        self.add('10 PRINT 1')
        self.add('10')
        self.assertEqual(len(self.program), 0)
        self.assertIsNone(self.program.lowest_line())

    def test_list_range(self):
        for number in (10, 20, 30, 40):
            self.add('%d END' % number)
        self.assertEqual([n for n, _ in self.program.list(15, 30)], [20, 30])
        self.assertEqual(self.program.delete_range(None, 20), 2)
        self.assertEqual(self.program.numbers, [30, 40])

    def test_source_is_stored_in_listing_form(self):
        self.add('10 print  "a"')
        self.assertEqual(self.program.listing(), ['10 PRINT  "a"'])
        self.add('20 print"hi":?x')
        self.assertEqual(self.program.get(20).source, 'PRINT "hi":PRINT X')
        self.add('30 go to 10')
        self.assertEqual(self.program.get(30).source, 'GOTO 10')

    def test_data_items_in_program_order(self):
        self.add('20 DATA 3')
        self.add('10 DATA 1,"TWO"')
        self.assertEqual(self.program.data_items(),
                         [(10, '1', False), (10, 'TWO', True), (20, '3', False)])
        self.add('15 DATA X')
        self.assertEqual(len(self.program.data_items()), 4)

    def test_load_text(self):
        count = self.program.load_text('20 END\n\n10 PRINT 1\n', self.parser)
        self.assertEqual(count, 2)
        self.assertEqual(self.program.numbers, [10, 20])

    def test_load_text_rejects_direct_statement(self):
        with self.assertRaises(DirectStatementInFileError) as cm:
            self.program.load_text('10 END\nPRINT 1\n', self.parser)
        self.assertEqual(cm.exception.detail, 'In line 2 of the file.')

    def test_load_text_failure_keeps_old_program(self):
        self.add('10 PRINT "OLD"')
        with self.assertRaises(BasicSyntaxError) as cm:
            self.program.load_text('10 END\n20 PRINT (\n', self.parser)
        self.assertEqual(cm.exception.line, 20)
        self.assertEqual(self.program.listing(), ['10 PRINT "OLD"'])


class TestRenumber(unittest.TestCase):

    def setUp(self):
        self.parser = Parser()
        self.program = Program()

    def load(self, *lines):
        self.program.load_text("\n".join(lines), self.parser)

    def test_defaults_and_references(self):
        self.load('5 PRINT 1', '7 GOTO 5', '9 ON X GOSUB 5,7,9',
                  '11 IF X THEN 5 ELSE 7', '13 RESTORE 5: RUN 9')
        self.assertEqual(self.program.renumber(self.parser), 5)
        self.assertEqual(self.program.listing(), [
            '10 PRINT 1', '20 GOTO 10', '30 ON X GOSUB 10,20,30',
            '40 IF X THEN 10 ELSE 20', '50 RESTORE 10: RUN 30'])
        self.assertEqual(self.program.get(20).statements[0].line, 10)

    def test_only_lines_from_old_start_move(self):
        self.load('10 END', '20 GOTO 30', '30 GOTO 10')
        self.assertEqual(self.program.renumber(self.parser, 100, 20, 5), 2)
        self.assertEqual(self.program.listing(), ['10 END', '100 GOTO 105', '105 GOTO 10'])

    def test_missing_target_is_left_alone(self):
        self.load('10 GOTO 99')
        with self.assertLogs('program', level='WARNING'):
            self.program.renumber(self.parser, 100)
        self.assertEqual(self.program.listing(), ['100 GOTO 99'])

    def test_numbers_must_fit(self):
        self.load('10 END', '20 END', '30 END')
        for new_start, old_start, step in ((5, 20, 10), (65520, None, 10), (10, None, 0)):
            with self.assertRaises(IllegalQuantityError):
                self.program.renumber(self.parser, new_start, old_start, step)
        self.assertEqual(self.program.numbers, [10, 20, 30])

    def test_data_follows_its_line(self):
        self.load('1 DATA 7', '2 READ A')
        self.program.renumber(self.parser, 100, None, 100)
        self.assertEqual(self.program.data_items(), [(100, '7', False)])


class TestCompile(unittest.TestCase):

    def compile(self, text):
        return compile_statements(Parser().parse_source(text)[1])

    def test_plain_statements_unchanged(self):
        code = self.compile('A=1: PRINT A')
        self.assertEqual([type(s) for s in code], [nodes.Let, nodes.Print])

    def test_if_without_else(self):
        code = self.compile('IF A THEN PRINT 1: PRINT 2')
        self.assertIsInstance(code[0], nodes.IfJump)
        self.assertIsNone(code[0].target)
        self.assertEqual(len(code), 3)

    def test_if_with_else(self):
        code = self.compile('IF A THEN PRINT 1 ELSE PRINT 2')
        self.assertEqual([type(s) for s in code],
                         [nodes.IfJump, nodes.Print, nodes.Jump, nodes.Print])
        self.assertEqual(code[0].target, 3)
        self.assertEqual(code[2].target, 4)


if __name__ == '__main__':
    unittest.main()
