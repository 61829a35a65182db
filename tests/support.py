"""Shared helpers for the interpreter tests."""

import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Config
from interpreter import BasicInterpreter


class CaptureIO:
    """Terminal stand-in: records every write, answers INPUT from a list.

    An entry of KeyboardInterrupt in `inputs` is raised instead of returned,
    the way a console reports Ctrl-C while waiting for a reply.
    """

    def __init__(self, inputs=None):
        self.writes = []
        self.prompts = []
        self.inputs = list(inputs or [])
        self.on_write = None

    def write(self, text):
        self.writes.append(text)
        if self.on_write:
            self.on_write(text)

    def input(self, prompt=""):
        self.prompts.append(prompt)
        if not self.inputs:
            raise EOFError()
        reply = self.inputs.pop(0)
        if reply is KeyboardInterrupt:
            raise KeyboardInterrupt()
        return reply

    @property
    def output(self):
        return "".join(self.writes)

    def reset(self):
        self.writes = []
        self.prompts = []


def make_interpreter(inputs=None, **settings):
    io = CaptureIO(inputs)
    interp = BasicInterpreter(io_handler=io, config=Config(settings))
    return interp, io


def run_source(source, inputs=None, **settings):
    """Load a program from text, RUN it and return (interpreter, io)."""
    interp, io = make_interpreter(inputs, **settings)
    if not interp.load_program(source):
        raise AssertionError("program did not load: %s" % io.output)
    interp.run()
    return interp, io
