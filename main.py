"""
Entry point for the docker log monitor agent.

Equivalent to the ``dlm`` console script.
"""

from dlm_agent.cli import cli

if __name__ == "__main__":
    cli()
