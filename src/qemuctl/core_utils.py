"""
Core utility functions for qemuctl.

This module provides a collection of helper functions for console output,
command execution, file operations and user interaction.
"""
import os
import re
import shlex
import shutil
import logging
import subprocess
import sys

import questionary
from rich.console import Console
from rich.panel import Panel

console = Console()
# Create a dedicated console for printing errors to stderr
error_console = Console(stderr=True, style="bold red")

logger = logging.getLogger(__name__)

# --- Text and Styling ---

def print_header(text):
    """Prints a styled header to the console."""
    console.print(Panel(f"[bold cyan]{text}[/]", expand=False, border_style="blue"))

def print_info(text):
    """Prints an informational message to the console."""
    console.print(f"[cyan]ℹ️  {text}[/]")

def print_success(text):
    """Prints a success message to the console."""
    console.print(f"[green]✅ {text}[/]")

def print_warning(text):
    """Prints a warning message to the console."""
    console.print(f"[yellow]⚠️  {text}[/]")

def print_error(text):
    """
    Prints raw, unformatted text to stderr so that paths containing
    square brackets are never mistaken for rich markup.
    """
    print(f"❌ {text}", file=sys.stderr)


def wait_for_enter(message="Press Enter to continue..."):
    """Waits for the user to press Enter. ESC and Ctrl+C just return."""
    try:
        questionary.text(f"\n{message}").ask()
    except (KeyboardInterrupt, EOFError):
        pass


class UserCancelled(Exception):
    """Exception raised when user cancels an operation via ESC or Ctrl+C."""
    pass


def safe_text_ask(prompt, default="", allow_empty=False):
    """
    Safely ask for text input with proper cancellation handling.

    Args:
        prompt: The prompt to display
        default: Default value if user enters empty string
        allow_empty: If True, empty input returns empty string; if False, returns default

    Returns:
        User input (stripped) or default value

    Raises:
        UserCancelled if user presses ESC/Ctrl+C
    """
    result = questionary.text(prompt).ask()
    if result is None:
        raise UserCancelled("Operation cancelled by user")

    stripped = result.strip()
    if not stripped and not allow_empty:
        return default
    return stripped


def normalize_size(value):
    """
    Normalizes a size string like '80g', '80GB' or '80' to QEMU's '80G' form.
    Returns None if the value is not a size.
    """
    text = (value or "").strip().upper()
    match = re.match(r"^(\d+)\s*([KMGT])?B?$", text)
    if not match:
        return None
    number, unit = match.groups()
    return f"{number}{unit or 'G'}"


def get_disk_size(prompt, default_size):
    """
    Prompts the user for a disk size and validates the input.
    Accepts formats like '80G', '80g', '80GB', or just a number (assumes GB).

    Returns:
        Disk size string (e.g., '80G') or None if user cancelled
    """
    while True:
        result = questionary.text(f"{prompt} [default: {default_size}]:").ask()

        # Handle user cancellation (ESC/Ctrl+C)
        if result is None:
            return None

        size = normalize_size(result.strip() or default_size)
        if size:
            return size

        print_warning("Invalid format. Please enter a number, optionally followed by G, GB, M, etc. (e.g., 80G, 512M).")


def select_from_list(items, prompt):
    """
    Prompts the user to select an item from a list.
    Returns None if the list is empty or the user cancels.
    """
    if not items:
        print_warning("No items to select from.")
        return None

    choices = [questionary.Choice(title=str(item), value=item) for item in items]

    custom_style = questionary.Style([
        ('selected', 'fg:#673ab7 bold'),
        ('highlighted', 'fg:#673ab7 bold'),
        ('pointer', 'fg:#673ab7 bold'),
    ])

    try:
        # .ask() returns None if the user cancels (e.g., with Ctrl+C or Esc)
        return questionary.select(
            message=prompt,
            choices=choices,
            use_indicator=True,
            style=custom_style
        ).ask()
    except KeyboardInterrupt:
        print_info("\nSelection cancelled by user.")
        return None

# --- Command Execution ---

def format_command(cmd_list):
    """Returns a shell-quoted, copy-pasteable rendering of a command list."""
    return ' '.join(shlex.quote(str(s)) for s in cmd_list)


def run_command_live(cmd_list, check=True, quiet=False):
    """
    Runs a command to completion and prints its output live.
    Returns the command's output as a string if successful, otherwise None.
    """
    # Make a copy to avoid mutating the caller's list
    cmd_list = [str(s) for s in cmd_list]

    cmd_str = format_command(cmd_list)
    logger.debug(f"Executing: {cmd_str}")
    if not quiet:
        console.print(f"\n[blue]▶️  Executing: {cmd_str}[/]", highlight=False)

    try:
        process = subprocess.Popen(
            cmd_list,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            bufsize=1,
            encoding='utf-8',
            errors='ignore'
        )

        output_lines = []
        # Iterate over the output line by line until the process ends
        for line in iter(process.stdout.readline, ''):
            if not quiet:
                console.print(f"  {line.strip()}", highlight=False)
            output_lines.append(line)

        return_code = process.wait()
        stderr_output = process.stderr.read()
        stdout_output = "".join(output_lines)

        if check and return_code != 0:
            raise subprocess.CalledProcessError(
                return_code, cmd_list, output=stdout_output, stderr=stderr_output
            )

        return stdout_output

    except FileNotFoundError:
        logger.warning(f"Command not found: {cmd_list[0]}")
        print_error(f"Command not found: '{cmd_list[0]}'. Please ensure it is installed and in your PATH.")
        return None
    except subprocess.CalledProcessError as e:
        logger.warning(f"Command exited with {e.returncode}: {cmd_str}")
        print_error(f"Command failed with exit code {e.returncode}: {cmd_str}")
        if e.stderr:
            error_console.print(f"Error Details (stderr):\n{e.stderr.strip()}", markup=False)
        return None
    except OSError as e:
        logger.warning(f"Could not run {cmd_list[0]}: {e}")
        print_error(f"Could not run '{cmd_list[0]}': {e}")
        return None

# --- File and Directory Operations ---

def remove_file(path, quiet=False):
    """Removes a file. Returns True on success."""
    try:
        os.remove(path)
        if not quiet:
            print_success(f"Removed: {path}")
        return True
    except OSError as e:
        logger.warning(f"Could not remove file {path}: {e}")
        if not quiet:
            print_error(f"Could not remove file {path}: {e}")
        return False


def remove_dir(path, quiet=False):
    """Removes a directory and its contents. Returns True on success."""
    try:
        shutil.rmtree(path)
        if not quiet:
            print_success(f"Deleted directory: {os.path.basename(path)}")
        return True
    except OSError as e:
        logger.warning(f"Could not delete directory {path}: {e}")
        if not quiet:
            print_error(f"Could not delete directory {path}: {e}")
        return False
