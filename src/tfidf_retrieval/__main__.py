import sys

from tfidf_retrieval.cli import main

sys.exit(main())
