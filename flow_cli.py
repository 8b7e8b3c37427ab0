"""Simple CLI util for filling in a flow from the terminal.

This module imports and executes the main function from scripts.run_flow
when run as a script.
"""

from scripts.run_flow import main


def run_main() -> None:
    """Runs the main function from scripts.run_flow.

    This function serves as the entry point when the script is executed directly.
    In project root directory, run:

    python -m flow_cli
    """
    main()


if __name__ == "__main__":
    run_main()
