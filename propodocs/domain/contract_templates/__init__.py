"""Contract templates domain - reusable contract bodies with placeholders"""
