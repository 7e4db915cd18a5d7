"""Simulated shell used when no container runtime is reachable.

This is a fixed lookup table, not an interpreter. It only keeps a terminal
session usable and recognizes a small, enumerated set of commands.
"""

import re
from typing import Callable, Optional

from sandterm.ansi import RED, YELLOW, color

NODE_VERSION = "v16.15.0"
PYTHON_VERSION = "Python 3.9.13"
WORKING_DIRECTORY = "/workspace"

DIRECTORY_LISTING = (
    "total 24",
    "drwxr-xr-x  6 user  staff  192 Apr 15 12:34 .",
    "drwxr-xr-x  4 user  staff  128 Apr 15 12:34 ..",
    "-rw-r--r--  1 user  staff  284 Apr 15 12:34 index.js",
    "-rw-r--r--  1 user  staff  123 Apr 15 12:34 package.json",
    "drwxr-xr-x  4 user  staff  128 Apr 15 12:34 node_modules",
)

HELP_TEXT = (
    "Simulated commands: node -v, node --version, python --version, python -V, "
    "python3 --version, ls, ls -la, pwd, echo <text>, help, "
    "node -e \"console.log('...')\", python3 -c \"print('...')\", python3 \"<file>.py\"",
)

EXACT_COMMANDS: dict[str, tuple[str, ...]] = {
    "node -v": (NODE_VERSION,),
    "node --version": (NODE_VERSION,),
    "python --version": (PYTHON_VERSION,),
    "python -V": (PYTHON_VERSION,),
    "python3 --version": (PYTHON_VERSION,),
    "ls": DIRECTORY_LISTING,
    "ls -la": DIRECTORY_LISTING,
    "pwd": (WORKING_DIRECTORY,),
    "help": HELP_TEXT,
}

CONSOLE_LOG_LITERAL = re.compile(r"""console\.log\(['"]([^'"]+)['"]\)""")
PRINT_LITERAL = re.compile(r"""print\(['"]([^'"]+)['"]\)""")
PYTHON_FILE = re.compile(r'python3 "([^"]+)"')


def _lines(*lines: str) -> str:
    return "".join(f"{line}\r\n" for line in lines)


def _echo(command: str) -> Optional[str]:
    if command != "echo" and not command.startswith("echo "):
        return None
    return _lines(command[4:].strip())


def _node(command: str) -> Optional[str]:
    if not command.startswith("node "):
        return None
    if "console.log" in command:
        match = CONSOLE_LOG_LITERAL.search(command)
        return _lines(match.group(1) if match else "undefined")
    return _lines("Program executed successfully.")


def _python(command: str) -> Optional[str]:
    if not command.startswith(("python ", "python3 ")):
        return None
    if "-c" in command and "print" in command:
        match = PRINT_LITERAL.search(command)
        return _lines(match.group(1) if match else "None")
    file_match = PYTHON_FILE.search(command)
    if file_match:
        filename = file_match.group(1)
        if not filename.endswith(".py"):
            return _lines(
                f"Executing Python file: {filename}",
                color(f"Error: {filename} is not a Python file", RED),
            )
        return _lines(
            f"Executing Python file: {filename}",
            "Python script executed successfully.",
        )
    return _lines("Python command executed successfully.")


# Checked in order after the exact table.
PATTERN_RULES: tuple[Callable[[str], Optional[str]], ...] = (_echo, _node, _python)


def simulate(command: str) -> str:
    """Return the canned output for a command."""
    command = command.strip()
    if command in EXACT_COMMANDS:
        return _lines(*EXACT_COMMANDS[command])

    for rule in PATTERN_RULES:
        output = rule(command)
        if output is not None:
            return output

    return _lines(
        color(f"Command not recognized in simulation mode: {command}", RED),
        color(
            "Tip: Docker is not available. The terminal is in simulation mode "
            "with limited functionality.",
            YELLOW,
        ),
    )
