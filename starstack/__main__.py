import sys

from starstack.cli import main

sys.exit(main())
