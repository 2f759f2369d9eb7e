import sys

from diskscope.analyzer import main

sys.exit(main())
