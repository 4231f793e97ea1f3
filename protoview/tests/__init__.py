"""ProtoView test suite"""
