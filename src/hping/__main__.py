from hping.cli import main

main()
