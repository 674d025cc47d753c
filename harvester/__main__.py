from harvester.main import main

raise SystemExit(main())
