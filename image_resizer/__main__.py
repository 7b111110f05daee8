from image_resizer.cli import main

raise SystemExit(main())
