from teardown_harness.cli import main

raise SystemExit(main())
