"""
CLI entry point, when used as a module: `python -m cpa_operator`.

Useful for debugging in the IDEs (use the start-mode "Module", module "cpa_operator").
"""
from cpa_operator import cli

if __name__ == '__main__':
    cli.main()
