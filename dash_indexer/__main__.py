import sys

from dash_indexer.main import main

sys.exit(main())
