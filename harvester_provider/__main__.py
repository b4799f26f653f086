from harvester_provider.cli import main

main()
