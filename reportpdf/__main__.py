import sys

from reportpdf.cli import main

sys.exit(main())
