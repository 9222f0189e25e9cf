from testmux.main import main

main()
