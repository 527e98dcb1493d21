import sys

from lemma_clusters.cli import main

sys.exit(main())
