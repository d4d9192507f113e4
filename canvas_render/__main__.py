import sys

from canvas_render.cli import main

sys.exit(main())
