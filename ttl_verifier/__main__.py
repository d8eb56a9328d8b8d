from ttl_verifier.cli import main

main()
