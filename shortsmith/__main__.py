"""
Entry point for `python -m shortsmith`.

Routes to the CLI by default. The server has its own module entry:
  python -m shortsmith           -> CLI (export, geometry, styles, info)
  python -m shortsmith.server    -> Local backend server for the editor UI
"""

from shortsmith.cli import main

main()
