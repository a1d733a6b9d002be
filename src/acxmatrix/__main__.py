import sys

from acxmatrix.cli import main

sys.exit(main())
