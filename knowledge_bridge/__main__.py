from knowledge_bridge.cli import main

raise SystemExit(main())
