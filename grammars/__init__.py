"""Built-in grammar definitions"""
