import sys
import logging
from typing import List, Optional

import setproctitle

import sppmon.console as console
from sppmon.log import setup_logging
from sppmon.config import effective_settings

log = logging.getLogger("console")


def main(argv: Optional[List[str]] = None) -> int:
    """The main entry point for the console application."""
    args = list(sys.argv[1:] if argv is None else argv)

    setproctitle.setproctitle(effective_settings.PROCESS_TITLE)
    setup_logging(logging.INFO, effective_settings.LOG_FILE_PATH)

    if "--verbose" in args:
        console.toggle_verbose_logging()
        args.remove("--verbose")

    if not args or args[0] in ("-h", "--help"):
        console.print_help()
        return 0 if args else 2

    command, args = args[0].lower(), args[1:]
    return console.execute_command(command, args)


if __name__ == "__main__":
    sys.exit(main())
