"""Allow ``python -m intentflow``."""

from intentflow.cli import main

main()
