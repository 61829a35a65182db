import sys
import signal
import logging
import threading
import queue

from config import load_config
from errors import BasicError
from interpreter import BasicInterpreter, RUNNING

try:
    import tkinter as tk
    from tkinter import font
    HAS_TK = True
except ImportError:
    HAS_TK = False

logger = logging.getLogger(__name__)

EXIT_COMMANDS = ('EXIT', 'BYE')


class ConsoleIOHandler:
    def __init__(self):
        self.waiting = False

    def write(self, text):
        print(text, end="", flush=True)

    def input(self, prompt=""):
        self.waiting = True
        try:
            return input(prompt)
        finally:
            self.waiting = False

    def clear_screen(self):
        print("\033[2J\033[H", end="", flush=True)

    def shutdown(self):
        sys.stdout.flush()


class GuiIOHandler:
    def __init__(self, gui):
        self.gui = gui
        self.input_queue = queue.Queue()

    def write(self, text):
        self.gui.write(text)

    def input(self, prompt=""):
        self.write(prompt)
        self.gui.enable_input()
        text = self.input_queue.get()
        if text is None:
            raise KeyboardInterrupt()
        return text

    def clear_screen(self):
        self.gui.clear_screen()

    def shutdown(self):
        self.gui.shutdown()


class TerminalGUI:
    def __init__(self, root):
        self.root = root
        self.root.title("BASIC")
        self.root.resizable(False, False)

        self.font = font.Font(family="Courier", size=14)
        self.text_widget = tk.Text(root, bg="black", fg="#00FF00",
                                   insertbackground="green",
                                   font=self.font,
                                   width=80, height=24,
                                   wrap=tk.CHAR,
                                   padx=5, pady=5)
        self.text_widget.pack(fill=tk.BOTH, expand=True)

        self.text_widget.bind("<Key>", self.on_key)
        self.text_widget.bind("<Return>", self.on_return)
        self.text_widget.bind("<BackSpace>", self.on_backspace)
        self.text_widget.bind("<Escape>", self.on_escape)
        # Keep the cursor where output goes
        self.text_widget.bind("<Button-1>", lambda e: self.text_widget.focus_set() or "break")

        self.input_enabled = False
        self.current_input = []
        self.io_handler = None
        self.interpreter = None

    def attach(self, io_handler, interpreter):
        self.io_handler = io_handler
        self.interpreter = interpreter

    def clear_screen(self):
        self.root.after_idle(self._clear_screen_impl)

    def _clear_screen_impl(self):
        self.text_widget.delete('1.0', tk.END)
        self.text_widget.mark_set(tk.INSERT, '1.0')

    def write(self, text):
        self.root.after_idle(self._write_impl, text)

    def _write_impl(self, text):
        self.text_widget.mark_set(tk.INSERT, tk.END)
        self.text_widget.insert(tk.INSERT, text)
        self.text_widget.see(tk.END)

    def enable_input(self):
        self.root.after_idle(self._enable_input_impl)

    def _enable_input_impl(self):
        self.input_enabled = True
        self.current_input = []
        self.text_widget.mark_set(tk.INSERT, tk.END)
        self.text_widget.focus_set()

    def on_key(self, event):
        if not self.input_enabled:
            return "break"
        if event.char and event.char.isprintable() and event.keysym not in ("Return", "BackSpace"):
            self.current_input.append(event.char)

    def on_backspace(self, event):
        if not self.input_enabled or not self.current_input:
            return "break"
        self.current_input.pop()

    def on_return(self, event):
        if not self.input_enabled:
            return "break"
        text = "".join(self.current_input)
        self.text_widget.insert(tk.END, "\n")
        self.text_widget.see(tk.END)
        self.input_enabled = False
        self.io_handler.input_queue.put(text)
        return "break"

    def on_escape(self, event):
        if self.interpreter is not None:
            self.interpreter.signal_break()
        if self.input_enabled:
            self.input_enabled = False
            self.text_widget.insert(tk.END, "\n")
            self.io_handler.input_queue.put(None)
        return "break"

    def shutdown(self):
        self.root.after(100, self.root.destroy)


class BasicCLI:
    def __init__(self, io_handler, config=None):
        self.io_handler = io_handler
        self.interpreter = BasicInterpreter(io_handler=io_handler, config=config)

    def print(self, text):
        self.io_handler.write(text + "\n")

    def run_repl(self, autorun=False):
        self.print("BASIC interpreter. Type EXIT to leave.")
        if autorun:
            self.interpreter.run()
        self.io_handler.write(self.interpreter.ready_prompt())
        while True:
            try:
                line = self.io_handler.input("")
                if line.strip().upper() in EXIT_COMMANDS:
                    break
                if self.interpreter.enter(line):
                    self.io_handler.write(self.interpreter.ready_prompt())
            except KeyboardInterrupt:
                self.io_handler.write("\n")
            except EOFError:
                break
        self.io_handler.shutdown()


def install_break_handler(interpreter, io_handler):
    """Ctrl-C breaks a running program; at the prompt it just abandons the line."""

    def on_interrupt(signum, frame):
        if interpreter.state == RUNNING and not io_handler.waiting:
            interpreter.signal_break()
        else:
            raise KeyboardInterrupt()

    signal.signal(signal.SIGINT, on_interrupt)


def check_tk_availability():
    """Checks if Tkinter can be initialized without crashing (via subprocess)."""
    import subprocess
    try:
        cmd = [sys.executable, "-c", "import tkinter as tk; root = tk.Tk(); root.destroy()"]
        subprocess.check_call(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL, timeout=2)
        return True
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired, FileNotFoundError):
        return False


def run_gui(config, filename=None):
    root = tk.Tk()
    gui = TerminalGUI(root)
    io_handler = GuiIOHandler(gui)
    cli = BasicCLI(io_handler, config)
    gui.attach(io_handler, cli.interpreter)

    autorun = False
    if filename:
        autorun = cli.interpreter.load_program(
            cli.interpreter.retriever.load(filename, cli.interpreter.parser))

    t = threading.Thread(target=cli.run_repl, args=(autorun,), daemon=True)
    t.start()
    root.mainloop()


def run_program(config, filename):
    """Load (patching if needed) and run one program, then exit."""
    io_handler = ConsoleIOHandler()
    interpreter = BasicInterpreter(io_handler=io_handler, config=config)
    install_break_handler(interpreter, io_handler)
    try:
        text = interpreter.retriever.load(filename, interpreter.parser)
        interpreter.program.load_text(text, interpreter.parser)
    except BasicError as e:
        sys.stderr.write("%s\n" % e)
        return 1
    logger.info("running %s", filename)
    interpreter.run()
    return 0 if interpreter.last_error is None else 1


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    use_gui = '--gui' in argv
    args = [arg for arg in argv if arg != '--gui']

    config = load_config()
    logging.basicConfig(stream=sys.stderr,
                        level=getattr(logging, config.log_level, logging.WARNING),
                        format="%(levelname)s %(name)s: %(message)s")

    if use_gui:
        if HAS_TK and check_tk_availability():
            try:
                run_gui(config, args[0] if args else None)
                return 0
            except (tk.TclError, BasicError) as e:
                print(f"Failed to initialize GUI: {e}")
        print("Tkinter not available. Falling back to console mode...")

    if args:
        return run_program(config, args[0])

    cli = BasicCLI(ConsoleIOHandler(), config)
    install_break_handler(cli.interpreter, cli.io_handler)
    cli.run_repl()
    return 0


if __name__ == "__main__":
    sys.exit(main())
