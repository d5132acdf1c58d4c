from adkchat.cli.app import main

main()
