from charizhard.server import main

main()
