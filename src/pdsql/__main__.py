from pdsql.main import main

raise SystemExit(main())
