import sys

from persistroot.cli import main

sys.exit(main())
