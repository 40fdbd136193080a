import logging
from typing import List

from sppmon.errors import SppmonError
from sppmon.console.handler import (
    handle_control_command, handle_deploy_command, handle_resolve_command, handle_rollback_command,
    print_help, print_control_help,
)

log = logging.getLogger(__name__)


def execute_command(command: str, args: List[str]) -> int:
    """
    Executes a single command from the user.

    :param command: The main command string (e.g., 'deploy', 'control').
    :param args: A list of arguments for the command.
    :return int: The exit code, 0 on success.
    """
    log.debug(f"Executing command: {command}, args: {args}")
    command_map = {
        "deploy": handle_deploy_command,
        "rollback": handle_rollback_command,
        "resolve": handle_resolve_command,
        "control": handle_control_command,
        "help": print_help,
    }

    if command not in command_map:
        log.error(f"Unknown command: '{command}'. Type 'help' for a list of commands.")
        return 2

    try:
        return command_map[command](args) or 0
    except SppmonError as e:
        log.error(str(e))
        if command == "control" and args and args[0] == "clean":
            print_control_help()
        return 1
    except KeyboardInterrupt:
        log.warning("Interrupted.")
        return 130
    except Exception as e:
        log.error(f"An unexpected error occurred while running '{command}': {e}", exc_info=True)
        return 1
