"""
Entry point: starts the signal bridge webhook server.

Configuration comes from environment variables (or .env), see
signal_bridge/config.py.
"""

from signal_bridge.server import main


if __name__ == "__main__":
    main()
