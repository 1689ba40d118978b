from pbcat.cli import main

main()
