from llm_globber.cli import main

raise SystemExit(main())
