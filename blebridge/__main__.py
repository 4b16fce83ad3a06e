from blebridge.cli.main import main

raise SystemExit(main())
