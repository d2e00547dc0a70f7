from workflow_cli.main import main

raise SystemExit(main())
