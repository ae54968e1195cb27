from coinbot.app import run

run()
