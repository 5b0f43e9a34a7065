# Actor worker internals: extractor and critic actors, scheduler, persistence.

# Re-export entry-points so ``from deckcheck.worker import main`` works.
from deckcheck.worker.main import main, run_scheduler, build_scheduler  # noqa: F401
