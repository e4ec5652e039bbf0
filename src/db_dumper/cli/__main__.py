import sys

from db_dumper.cli import main

sys.exit(main())
