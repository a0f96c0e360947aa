"""Allow ``python -m lextrans.cli`` execution (defaults to the translate CLI)."""

from lextrans.cli.translate import main

main()
