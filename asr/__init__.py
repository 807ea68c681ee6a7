"""App Service Reconciler (ASR).

Keeps the Deployment and Service behind each MyApp object in sync with the
MyApp spec:
 - creates both children on first sight, owned by the MyApp
 - detects spec drift through a last-applied snapshot annotation
 - updates only the children whose rendered form changed, keeping
   platform-assigned service fields (cluster IPs, allocated node ports)
"""
