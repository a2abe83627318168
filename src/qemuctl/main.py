"""
Main entry point for qemuctl.

Subcommands (create/start/stop/delete/list) are provided through click; run
without a subcommand, qemuctl opens an interactive menu.
"""
import sys
import logging
from functools import wraps

import click
import questionary
from rich.table import Table

from . import __version__
from .config import load_config, setup_logging
from .core_utils import (
    console, print_header, print_info, print_success, print_warning, print_error,
    safe_text_ask, select_from_list, get_disk_size, wait_for_enter, UserCancelled
)
from .error_handling import PersistError, QemuctlError, get_error_handler
from .vm_lifecycle import VMManager

logger = logging.getLogger(__name__)

EXIT_FAILURE = 1
EXIT_PERSIST_FAILED = 3


def _get_manager(ctx) -> VMManager:
    obj = ctx.ensure_object(dict)
    if obj.get('manager') is None:
        obj['manager'] = VMManager(config=obj.get('config') or load_config())
    return obj['manager']


def handle_errors(func):
    """
    Decorator turning qemuctl errors into a rendered message and an exit
    code. PersistError is fatal and gets its own exit code.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        ctx = click.get_current_context()
        try:
            return func(*args, **kwargs)
        except PersistError as e:
            get_error_handler().handle_error(e)
            ctx.exit(EXIT_PERSIST_FAILED)
        except QemuctlError as e:
            get_error_handler().handle_error(e)
            ctx.exit(EXIT_FAILURE)
    return wrapper


# --- Output helpers ---

def report_create(result):
    record = result.record
    if result.image_created:
        print_success(f"Disk image created at {record.disk}")
    else:
        print_warning(f"Disk image could not be created at {record.disk}; the VM was registered anyway.")
    print_success(f"VM '{record.name}' created and saved.")
    if result.pid is not None:
        print_success(f"VM '{record.name}' launched (PID: {result.pid})")
    elif result.launch_error:
        print_warning(f"VM '{record.name}' could not be launched: {result.launch_error}")


def report_delete(result):
    for warning in result.warnings:
        print_warning(warning)
    print_success(f"VM '{result.record.name}' has been deleted.")


def render_vm_list(records, running):
    """Prints the registered VMs and the live hypervisor processes."""
    table = Table(title="Defined VMs", expand=False)
    table.add_column("Name", style="bold cyan")
    table.add_column("CPU")
    table.add_column("Threads", justify="right")
    table.add_column("RAM", justify="right")
    table.add_column("Disk")
    table.add_column("ISO", style="dim")
    for record in records:
        table.add_row(record.name, record.cpu, record.threads, record.memory, record.disk, record.iso or "-")

    if records:
        console.print(table)
    else:
        print_info("No VMs defined.")

    console.print()
    if running:
        procs = Table(title="Running VMs", expand=False)
        procs.add_column("PID", justify="right", style="green")
        procs.add_column("Name", style="bold")
        procs.add_column("Command line", style="dim", overflow="fold")
        for proc in running:
            procs.add_row(str(proc.pid), proc.name or "?", proc.command_line)
        console.print(procs)
    else:
        print_info("No running VMs.")


# --- Command line interface ---

@click.group(invoke_without_command=True)
@click.version_option(__version__, prog_name="qemuctl")
@click.option('--verbose', '-v', is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx, verbose):
    """QEMU VM Management CLI"""
    obj = ctx.ensure_object(dict)
    config = obj.get('config') or load_config()
    obj['config'] = config
    setup_logging(verbose, level=config['LOG_LEVEL'])

    if ctx.invoked_subcommand is None:
        run_menu_command(ctx)


@handle_errors
def run_menu_command(ctx):
    vm_menu(_get_manager(ctx))


@cli.command()
@click.argument('name')
@click.option('-m', '--memory', metavar='SIZE', default=None, help="Amount of RAM (e.g., 4G).")
@click.option('-c', '--cpu', metavar='CPU', default=None, help="CPU model (e.g., host).")
@click.option('-t', '--threads', metavar='N', default=None, help="Number of virtual CPUs.")
@click.option('-s', '--disk-size', metavar='SIZE', default=None, help="Disk image size (e.g., 20G).")
@click.option('-i', '--iso', metavar='FILE', default="", help="Path to ISO for boot.")
@click.option('--gui', 'launch', flag_value='gui', help="Boot the ISO right away in a window.")
@click.option('--headless', 'launch', flag_value='headless', help="Boot the ISO right away without a display.")
@click.option('--no-launch', is_flag=True, help="Only register the VM, even when --gui or --headless is given.")
@click.pass_context
@handle_errors
def create(ctx, name, memory, cpu, threads, disk_size, iso, launch, no_launch):
    """Create a new VM"""
    if no_launch:
        launch = None
    manager = _get_manager(ctx)
    result = manager.create(
        name, memory=memory, disk_size=disk_size, threads=threads,
        iso=iso, cpu=cpu, launch=launch
    )
    report_create(result)


@cli.command()
@click.argument('name')
@click.option('--headless', is_flag=True, help="Run without a graphical display.")
@click.pass_context
@handle_errors
def start(ctx, name, headless):
    """Start a VM"""
    pid = _get_manager(ctx).start(name, headless=headless)
    print_success(f"Starting VM: {name} (PID: {pid})")


@cli.command()
@click.argument('name')
@click.pass_context
@handle_errors
def stop(ctx, name):
    """Stop a running VM"""
    if _get_manager(ctx).stop(name):
        print_success(f"Stop signal sent to VM '{name}'")
    else:
        print_warning(f"VM '{name}' could not be stopped cleanly; run 'qemuctl list' to check for leftover processes.")
        ctx.exit(EXIT_FAILURE)


@cli.command()
@click.argument('name')
@click.option('--yes', '-y', is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
@handle_errors
def delete(ctx, name, yes):
    """Delete a VM, its disk image and its folder"""
    manager = _get_manager(ctx)
    if manager.store.get(name) is not None and not yes:
        click.confirm(f"Permanently delete VM '{name}' and its disk image?", abort=True)
    report_delete(manager.delete(name))


@cli.command(name='list')
@click.pass_context
@handle_errors
def list_vms(ctx):
    """List defined and running VMs"""
    records, running = _get_manager(ctx).list()
    render_vm_list(records, running)


# --- Interactive menu ---

def select_vm(manager, action_text, running_only=False):
    """Prompts the user to pick one of the registered VMs."""
    names = manager.store.names()
    if running_only:
        names = [name for name in names if manager.is_running(name)]
    if not names:
        print_error("No running VMs found." if running_only else "No VMs defined.")
        return None
    return select_from_list(names, f"Choose a VM to {action_text}")


def create_vm_interactive(manager):
    print_header("Create New VM")
    config = manager.config
    name = safe_text_ask("Enter a short name for the new VM:")
    if not name:
        print_warning("A VM name is required.")
        return
    if manager.store.get(name) is not None:
        if not questionary.confirm(f"VM '{name}' already exists. Replace its definition?", default=False).ask():
            print_info("VM creation cancelled.")
            return

    memory = safe_text_ask(f"Memory [default: {config['DEFAULT_MEMORY']}]:", default=config['DEFAULT_MEMORY'])
    threads = safe_text_ask(f"CPU threads [default: {config['DEFAULT_THREADS']}]:", default=config['DEFAULT_THREADS'])
    disk_size = get_disk_size("Disk size", config['DEFAULT_DISK_SIZE'])
    if disk_size is None:
        raise UserCancelled("Operation cancelled by user")
    iso = safe_text_ask("Path to installation ISO (leave empty for none):", allow_empty=True)

    launch = None
    if iso:
        launch = questionary.select(
            "Boot the ISO now?",
            choices=[
                questionary.Choice("Yes, with a display window", value="gui"),
                questionary.Choice("Yes, headless", value="headless"),
                questionary.Choice("No, just create it", value=None),
            ],
            use_indicator=True
        ).ask()

    report_create(manager.create(name, memory=memory, disk_size=disk_size, threads=threads, iso=iso, launch=launch))


def start_vm_interactive(manager):
    vm_name = select_vm(manager, "start")
    if not vm_name:
        return
    headless = questionary.confirm("Run headless (no display)?", default=False).ask()
    if headless is None:
        raise UserCancelled("Operation cancelled by user")
    pid = manager.start(vm_name, headless=headless)
    print_success(f"Starting VM: {vm_name} (PID: {pid})")


def stop_vm_interactive(manager):
    vm_name = select_vm(manager, "stop", running_only=True)
    if not vm_name:
        return
    if manager.stop(vm_name):
        print_success(f"Stop signal sent to VM '{vm_name}'")
    else:
        print_warning(f"VM '{vm_name}' could not be stopped cleanly; run 'qemuctl list' to check for leftover processes.")


def delete_vm_interactive(manager):
    vm_name = select_vm(manager, "delete")
    if not vm_name:
        return
    print_warning(f"This will permanently delete the VM '{vm_name}', including its disk image.\nThis action CANNOT be undone.")
    confirm = safe_text_ask(f"To confirm, please type the name of the VM ({vm_name}):", allow_empty=True)
    if confirm != vm_name:
        print_error("Confirmation failed. Aborting.")
        return
    report_delete(manager.delete(vm_name))


MENU_ACTIONS = {
    "1. Create New VM": create_vm_interactive,
    "2. Start a VM": start_vm_interactive,
    "3. Stop a Running VM": stop_vm_interactive,
    "4. Delete a VM": delete_vm_interactive,
    "5. List VMs": lambda manager: render_vm_list(*manager.list()),
}
EXIT_CHOICE = "6. Exit"


def vm_menu(manager):
    """Main menu for VM management."""
    while True:
        console.print("\n[bold]QEMU VM Management[/]")
        console.rule(style="dim")
        try:
            choice = questionary.select(
                "Select an option",
                choices=list(MENU_ACTIONS) + [EXIT_CHOICE]
            ).ask()
            if choice is None or choice == EXIT_CHOICE:
                print_info("Exiting. Goodbye! 👋")
                break

            try:
                MENU_ACTIONS[choice](manager)
            except UserCancelled:
                print_info("Operation cancelled.")
            except PersistError:
                raise
            except QemuctlError as e:
                get_error_handler().handle_error(e)

            wait_for_enter("Press Enter to return to the menu...")
        except (KeyboardInterrupt, EOFError):
            print_info("\nExiting. Goodbye! 👋")
            break


def main():
    """Console script entry point"""
    try:
        cli(prog_name="qemuctl")
    except RuntimeError as e:
        if "lost sys.stdin" in str(e):
            print_error("This script is interactive and cannot be run in this environment.")
            sys.exit(EXIT_FAILURE)
        raise


if __name__ == "__main__":
    main()
