from mastery_engine.cli.main import main

main()
