import sys

from pipesock.cli import main

sys.exit(main())
