"""Module entry point for running the Flow Builder UI Flask application.

This module creates the Flask application instance from `flow_builder_ui`
and runs it when executed as a script.

Example:
    To start the application, run:

        python main.py

"""

from flow_builder_ui import create_app

app = create_app()

if __name__ == "__main__":
    # Run the Flask app directly when the script is executed
    app.run(host="0.0.0.0", port=8000)  # noqa: S104
