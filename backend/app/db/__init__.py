"""
Tree storage for the ENCG Portal

Path layout helpers and the TreeStore backends (memory, SQL).
"""
