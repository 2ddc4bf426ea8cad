import sys

from s3migrate.cli import main

sys.exit(main())
