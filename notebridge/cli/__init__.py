"""
This is the NoteBridge command-line interface.

- ``nbcli.py`` - the ``NoteBridgeCli`` class and the ``notebridge`` entry point.

"""
