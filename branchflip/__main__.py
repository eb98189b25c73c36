"""
Allow running branchflip as a module:

    python -m branchflip <command> [options]

Delegates to branchflip.cli:main().
"""
import sys
from .cli import main

sys.exit(main())
