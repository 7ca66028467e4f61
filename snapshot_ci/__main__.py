from snapshot_ci.main import main

main()
