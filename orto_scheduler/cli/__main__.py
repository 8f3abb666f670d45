"""
Entry point for running the planner as a module.

Usage:
    python -m orto_scheduler.cli plan state.json
    python -m orto_scheduler.cli --help
"""
from .planner import main

if __name__ == "__main__":
    main()
