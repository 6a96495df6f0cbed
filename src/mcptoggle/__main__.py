# Allows running mcp-toggle as `python -m mcptoggle`
import sys

from mcptoggle.cli import main

sys.exit(main())
