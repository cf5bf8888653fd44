import sys

from searchpipe.cli import main

sys.exit(main())
