"""Command-line tools for LexTrans.

- ``python -m lextrans.cli.translate`` -- run translations, browse history
- ``python -m lextrans.cli.knowledge`` -- manage and search knowledge bases
- ``python -m lextrans.cli.models``    -- manage model configurations

``python -m lextrans.cli`` is the same as ``python -m lextrans.cli.translate``.
"""
