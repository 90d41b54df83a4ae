"""Entry point for running the telemetry agent as a module.

Usage: python -m cave.telemetry
"""

from cave.telemetry.service import main

if __name__ == "__main__":
    main()
