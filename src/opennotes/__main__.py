import sys

from opennotes.cli import main

sys.exit(main())
