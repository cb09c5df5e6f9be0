from amqp_listener.cli import main

main()
