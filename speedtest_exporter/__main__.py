import sys

from speedtest_exporter.supervisor import main

if __name__ == "__main__":
	sys.exit(main())
