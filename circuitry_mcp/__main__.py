import sys

from circuitry_mcp.cli import main

sys.exit(main())
