import sys

from meshreach.cli import main

sys.exit(main())
