"""Allow ``python -m certwright``."""

from certwright.cli.main import main

main()
