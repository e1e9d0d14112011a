"""Phase orchestration scripts for the station isochrone analysis.

 - run_analysis.py: stations -> isochrones -> buildings -> classification -> distances -> figures
"""
