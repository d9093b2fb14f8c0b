import sys

from knowledge_rag.cli import main

sys.exit(main())
