import sys

from db_sanitizer.cli import main

sys.exit(main())
