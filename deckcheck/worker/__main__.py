from deckcheck.worker.main import main

main()
