from .managed_cluster import *
