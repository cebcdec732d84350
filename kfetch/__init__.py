version_info = (0, 1, 0)

__version__ = ".".join(str(point) for point in version_info)
