from hubblectl.cli import main

main()
