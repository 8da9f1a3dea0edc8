from ocipush.cli import main

main()
