from relaycat.cli import main

raise SystemExit(main())
