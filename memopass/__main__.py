import sys

from memopass.cli import main

sys.exit(main())
